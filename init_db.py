# init_db.py
from app.db import Base, SessionLocal, engine
from app.models import GlobalSettings


def init():
    print("Creating tables in the database...")
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        if db.get(GlobalSettings, 1) is None:
            db.add(GlobalSettings(id=1, jpeg_quality=80, thumb_quality=60))
            db.commit()
            print("Created default global settings.")
    print("✅ Tables created!")


if __name__ == "__main__":
    init()
