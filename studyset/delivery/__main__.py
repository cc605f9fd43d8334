from .study_cli import main

main()
