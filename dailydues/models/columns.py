# dailydues/models/columns.py
from .. import db

# BIGINT keys in MySQL; SQLite only autoincrements INTEGER PRIMARY KEY
BigId = db.BigInteger().with_variant(db.Integer, "sqlite")
