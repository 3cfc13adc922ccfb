"""
Type adapters package.

- type_mapping: Arrow type to PostgreSQL type/OID resolution and the psycopg
  binary dumpers used to encode values for binary COPY
"""
from bulkcopy.adapters.type_mapping import *
