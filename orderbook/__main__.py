from orderbook.cli import main

raise SystemExit(main())
