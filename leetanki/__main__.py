"""Allow `python -m leetanki`."""
from leetanki.cli.main import main

main()
