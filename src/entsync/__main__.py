from entsync.cli.main import main

main()
