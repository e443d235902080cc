from trifle.cli import main

raise SystemExit(main())
