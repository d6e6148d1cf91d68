from fusionrelay.main import main

main()
