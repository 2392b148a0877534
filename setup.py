"""Setup configuration for the storefront inventory ledger service."""

from setuptools import setup, find_packages

setup(
    name="storefront-inventory-ledger",
    version="1.0.0",
    description="Stock ledger, reservations, alerts and reporting for storefront products (FastAPI, SQLAlchemy, Kafka)",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn>=0.27.0",
        "confluent-kafka>=2.3.0",
        "sqlalchemy>=2.0.23",
        "psycopg2-binary>=2.9.9",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "httpx>=0.25",
        ],
    },
)
