from setuptools import setup

with open("requirements.txt") as f:
    required = f.read().splitlines()

exec(open("pammcore/version.py").read())
setup(
    name="pammcore",
    version=__version__,  # noqa: F821
    description="Gaussian and von Mises mixture models for Probabilistic Analysis of Molecular Motifs",
    install_requires=required,
    extras_require={"test": ["pytest"]},
    packages=["pammcore"],
    python_requires=">=3.9",
)
