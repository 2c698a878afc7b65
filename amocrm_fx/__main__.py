from amocrm_fx.run import main

main()
