import sys

from nativeprebuild.cli import main

sys.exit(main())
