from pushci.cli import cli

cli()
