import sys

from alertcrawler.main import main

sys.exit(main())
