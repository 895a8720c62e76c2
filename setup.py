"""
ModelGen - Schema-driven TypeScript model generator
Install: pip install -e .
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="modelgen",
    version="1.0.0",
    author="Diegoproggramer",
    author_email="",
    description="⚡ Generate typed TypeScript models from a relational schema",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/Diegoproggramer/modelgen",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"modelgen": ["ts_templates/*.ts.j2"]},
    include_package_data=True,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Code Generators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "jinja2>=3.1.0",
        "sqlalchemy>=2.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=23.0",
            "ruff>=0.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "modelgen=modelgen.cli:cli_main",
        ],
    },
    keywords="typescript, generator, schema, models, code-generator, orm",
    project_urls={
        "Bug Reports": "https://github.com/Diegoproggramer/modelgen/issues",
        "Source": "https://github.com/Diegoproggramer/modelgen",
    },
)
