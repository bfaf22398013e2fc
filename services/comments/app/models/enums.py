from sqlalchemy import Enum as SAEnum

from shared.constants import Role

# Generic Enum (VARCHAR + CHECK off Postgres) so the schema also builds on SQLite
user_role_enum = SAEnum(Role, name="user_role", create_constraint=False)
