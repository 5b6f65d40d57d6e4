import os
import sys
from decimal import Decimal

# Add 'backend' folder to Python path
sys.path.append(os.path.abspath(os.path.dirname(__file__)))

# Database models and setup
from models.plant import Plant
from database import SessionLocal, init_db

# Configuration
DEMO_PLANTS = [
    # (name, scientific name, price, vendor id)
    ("Snake Plant", "Dracaena trifasciata", "24.99", 101),
    ("ZZ Plant", "Zamioculcas zamiifolia", "29.50", 101),
    ("Peace Lily", "Spathiphyllum wallisii", "19.00", 101),
    ("Fiddle Leaf Fig", "Ficus lyrata", "64.00", 102),
    ("Pothos", "Epipremnum aureum", "12.75", 102),
    ("Monstera", "Monstera deliciosa", "48.00", 103),
]
# End Configuration

def seed_catalog(session) -> int:
    """Fills an empty plant catalog with demo entries. Returns the number added."""
    if session.query(Plant).first():
        print("Katalog nie jest pusty, pomijam.")
        return 0

    for name, scientific_name, price, vendor_id in DEMO_PLANTS:
        session.add(Plant(
            name=name,
            scientific_name=scientific_name,
            price=Decimal(price),
            in_stock=True,
            vendor_id=vendor_id,
        ))
    session.commit()
    print(f"Dodano {len(DEMO_PLANTS)} roślin do katalogu.")
    return len(DEMO_PLANTS)

if __name__ == "__main__":
    init_db()
    session = SessionLocal()
    try:
        seed_catalog(session)
    finally:
        session.close()
