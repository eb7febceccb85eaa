"""
Seed a local database with a demo storefront dataset.

    python scripts/seed_demo_data.py --sessions 1000 --create-tables
"""

from storefront_analytics.data.seed import main

if __name__ == "__main__":
    main()
