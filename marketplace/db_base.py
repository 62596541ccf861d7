"""Shared SQLAlchemy declarative base for all marketplace models."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
