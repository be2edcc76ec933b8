"""Main entry point for og-lambda"""

from og_lambda.cli.main import main

if __name__ == '__main__':
    raise SystemExit(main())
