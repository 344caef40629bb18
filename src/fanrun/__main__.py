from fanrun.cli import main

main()
