from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.core.config import settings

DATABASE_URI = str(settings.DATABASE_URI)

# SQLite necesita compartir la conexión entre el hilo del loop y el threadpool
connect_args = {"check_same_thread": False} if DATABASE_URI.startswith("sqlite") else {}

# pool_pre_ping habilita una comprobación de conexión antes de usarla del pool
engine = create_engine(DATABASE_URI, pool_pre_ping=True, connect_args=connect_args)

# Fábrica de sesiones usada por las dependencias y por los almacenes que abren su propia sesión
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
