from salescrm.db.base import Base
from salescrm.db.session import engine
import salescrm.db.models  # noqa


def init_db():
    Base.metadata.create_all(bind=engine)


if __name__ == "__main__":
    init_db()
