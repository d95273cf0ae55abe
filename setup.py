from setuptools import setup, find_packages

def parse_requirements(requirements):
    with open(requirements) as f:
        return [l.strip('\n') for l in f if l.strip('\n') and not l.startswith('#')]

requirements = parse_requirements("requirements.txt")

setup(
    name='crudgate',
    version='0.1.0',
    description='Query parsing, SQL building and row-level permissions for dynamic collections',
    python_requires='>=3.9',
    install_requires=requirements,
    package_dir={'': 'src'},
    packages=find_packages('src'),
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "crudgate=crudgate.cli.cli:cli",
        ],
    }
)
