from col_terrain.cli import main

main()
