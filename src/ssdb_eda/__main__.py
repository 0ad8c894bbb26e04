from ssdb_eda import cli

cli.app()
