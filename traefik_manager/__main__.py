from traefik_manager.cli import main

main()
