import sys

from redis_mutex.cli import main

sys.exit(main())
