"""
Package entry point.

Allows running the application via:

    python -m studyprogress

This simply forwards execution to studyprogress.cli.main().
"""

from studyprogress.cli import main

if __name__ == "__main__":
    main()
