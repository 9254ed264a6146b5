from nodesmith.cli import main

raise SystemExit(main())
