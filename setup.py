from setuptools import setup, find_packages
from codecs import open
from os import path

here = path.abspath(path.dirname(__file__))
name = "keg"
exec(open("keg/version.py").read())


# Get the long description from the README file
with open(path.join(here, "README.rst"), encoding="utf-8") as f:
    long_description = f.read()

try:
    with open(path.join(here, "requirements.txt"), encoding="utf-8") as f:
        pinned_reqs = f.readlines()
except FileNotFoundError:
    pinned_reqs = []


setup(
    name=name,
    version=__version__,
    python_requires=">=3.8",
    description="A formula based source package installer",
    long_description=long_description,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Topic :: Software Development :: Build Tools",
        "Topic :: System :: Installation/Setup",
        "Operating System :: MacOS :: MacOS X",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
    ],
    keywords=[
        "autotools",
        "build",
        "formula",
        "homebrew",
        "keg",
        "libxo",
        "package",
    ],
    packages=find_packages(exclude=["contrib", "docs", "tests"]),
    install_requires=pinned_reqs or [
        "bz2file",
        "click>=8.1",
        "colorama",
        "fasteners",
        "jinja2",
        "psutil",
        "requests",
        "zstandard",
        "tqdm",
    ],
    dependency_links=[],
    extras_require={
        "test": ["coverage", "pytest"],
    },
    package_data={
        "keg": ["templates/*.template"],
    },
    entry_points={
        "console_scripts": [
            "keg=keg.__main__:main",
        ],
    },
)
