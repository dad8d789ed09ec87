"""
Entry point.

Run: python -m storefront --sandbox
"""

from storefront.cli import main


if __name__ == "__main__":
    main()
