from setuptools import find_packages, setup

package_files = [
    "alembic.ini",
    "alembic/env.py",
    "alembic/script.py.mako",
    "alembic/versions/*.py",
]

setup(
    name="legacy-release",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    package_data={"legacy_release": package_files},
    python_requires=">=3.11",
    install_requires=[
        "sqlalchemy[asyncio]>=2.0.0",
        "pydantic>=2.0.0",
        "asyncpg>=0.29.0",  # Async store operations
        "psycopg2-binary>=2.9.9",  # Sync connection support for validators/migrations
        "alembic>=1.12.0",
        "python-dotenv>=1.0.0",
        "boto3>=1.28.0",  # SSM / Secrets Manager credential lookup
        "fastapi>=0.110.0",
        "uvicorn>=0.27.0",
        "httpx>=0.27.0",  # Email provider client and TestClient transport
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "legacy-release=legacy_release.cli:main",
        ],
    },
    description="Legacy Release - check-in driven release of protected messages",
    author="Legacy Release Team",
)
