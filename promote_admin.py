"""
Create or promote an admin wallet
Usage: python promote_admin.py <wallet_address> [name] [--super]
"""
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))

from repaircoin import models  # noqa: F401
from repaircoin.database import Base, SessionLocal, engine
from repaircoin.models import Admin
from repaircoin.shared.validators import normalize_address

logging.basicConfig(level=logging.INFO, format='%(message)s')
logger = logging.getLogger(__name__)


def promote_admin(address: str, name: str = None, super_admin: bool = False):
    """Insert the admin row, or re-activate and update an existing one"""
    address = normalize_address(address)
    Base.metadata.create_all(bind=engine, checkfirst=True)

    db = SessionLocal()
    try:
        admin = db.query(Admin).filter(Admin.wallet_address == address).first()
        if admin:
            logger.info(f"Updating existing admin {address}")
            admin.is_active = True
        else:
            logger.info(f"Creating admin {address}")
            admin = Admin(wallet_address=address)
            db.add(admin)
        if name:
            admin.name = name
        if super_admin:
            admin.is_super_admin = True
        db.commit()
        role = "a super admin" if admin.is_super_admin else "an admin"
        logger.info(f"✅ {address} is now {role}")
    finally:
        db.close()


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if a != "--super"]
    if not args:
        logger.error("Usage: python promote_admin.py <wallet_address> [name] [--super]")
        sys.exit(1)

    try:
        promote_admin(args[0], args[1] if len(args) > 1 else None, "--super" in sys.argv)
    except ValueError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"❌ Promotion failed: {e}")
        sys.exit(1)
