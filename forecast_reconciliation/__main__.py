import sys

from forecast_reconciliation.main import main

sys.exit(main())
