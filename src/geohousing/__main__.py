from geohousing.report import main

raise SystemExit(main())
