from ipback.cli import cli

cli()
