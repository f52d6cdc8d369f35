from cilprobe.cli.main import main

raise SystemExit(main())
