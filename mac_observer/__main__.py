from mac_observer.main import main

raise SystemExit(main())
