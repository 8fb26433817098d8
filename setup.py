from setuptools import setup

with open("requirements/requirements.in") as f:
    requirements = [line for line in f.read().split("\n") if line]

with open("requirements/requirements-test.in") as f:
    test_requirements = [line for line in f.read().split("\n") if line]

setup(
    name="fastcrud",
    version="0.0.1",
    description="Query-string filtering, sorting and pagination for CRUD services on SQL DBs",
    author="Matthew Shaw",
    packages=["fastcrud"],
    install_requires=requirements,
    extras_require={"test": test_requirements},
    entry_points={
        "console_scripts": [
            "fastcrud = fastcrud.__main__:cli",
        ],
    },
)
