from sqlalchemy import BigInteger, Integer

# Use BigInteger by default, with a SQLite-safe Integer variant for autoincrement PKs.
ID_TYPE = BigInteger().with_variant(Integer, "sqlite")

# Token amounts (entry fees, pool balances, prizes) in the smallest unit.
AMOUNT_TYPE = BigInteger()
