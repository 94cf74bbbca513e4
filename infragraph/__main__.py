from infragraph.cli import main

main()
