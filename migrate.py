#!/usr/bin/env python3
"""
Migraciones del esquema de facturación (Alembic).

    python migrate.py upgrade [revision]     # por defecto head
    python migrate.py downgrade [revision]   # por defecto -1
    python migrate.py create 'mensaje'       # autogenerate contra los modelos
    python migrate.py stamp <revision>       # marcar una base creada con create_all
    python migrate.py history | current
"""
import sys
from pathlib import Path

root_dir = Path(__file__).parent
sys.path.insert(0, str(root_dir))

from alembic.config import Config
from alembic import command
from app.core.config import settings


def get_alembic_config() -> Config:
    alembic_cfg = Config(str(root_dir / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_dir / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    return alembic_cfg


def upgrade(revision: str = "head"):
    command.upgrade(get_alembic_config(), revision)
    print(f"Base de datos en {revision}")


def downgrade(revision: str = "-1"):
    command.downgrade(get_alembic_config(), revision)
    print(f"Rollback hasta {revision}")


def create(message: str):
    command.revision(get_alembic_config(), autogenerate=True, message=message)
    print(f"Migración creada: {message}")


def stamp(revision: str):
    command.stamp(get_alembic_config(), revision)
    print(f"Base marcada en {revision}")


def history():
    command.history(get_alembic_config())


def current():
    command.current(get_alembic_config())


COMMANDS = {
    "upgrade": (upgrade, 0),
    "downgrade": (downgrade, 0),
    "create": (create, 1),
    "stamp": (stamp, 1),
    "history": (history, 0),
    "current": (current, 0),
}


if __name__ == "__main__":
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print(__doc__)
        sys.exit(1)

    func, required = COMMANDS[sys.argv[1]]
    args = sys.argv[2:]
    if len(args) < required:
        print(f"Error: '{sys.argv[1]}' requiere {required} argumento(s)")
        sys.exit(1)

    # Todos los comandos aceptan como mucho un argumento posicional
    func(*args[:1])
