"""Declarative user and database provisioner for PostgreSQL and MySQL/MariaDB"""

__version__ = "0.1.0"
