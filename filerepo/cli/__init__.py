"""Command-line tools for filerepo.

- ``python -m filerepo.cli.run import`` -- import every active source, then
  rebuild the search index and archive the corpus.
- ``python -m filerepo.cli.run search`` -- query the live search index.
- ``python -m filerepo.cli.run stats`` -- store and index counts.
"""
