from cronlink.cli import main

raise SystemExit(main())
