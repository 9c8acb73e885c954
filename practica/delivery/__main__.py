from practica.delivery.cli import main

main()
