from setuptools import setup, find_namespace_packages

setup(
    name="mentorsessions",
    version="0.1",
    packages=find_namespace_packages(include=["app", "app.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy",
        "psycopg2-binary",
        "python-jose[cryptography]",
        "pydantic",
        "pydantic-settings",  # BaseSettings moved out of pydantic v2
        "python-dotenv",
        "alembic"
    ],
    extras_require={
        "test": ["pytest", "httpx"],
    },
)
