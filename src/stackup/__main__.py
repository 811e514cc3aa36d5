"""Allow `python -m stackup`."""

from .cli import main

raise SystemExit(main())
