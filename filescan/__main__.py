from filescan.cli import main

raise SystemExit(main())
