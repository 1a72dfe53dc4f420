from setuptools import setup, find_packages

setup(
    name="SimReg",
    version="0.1.0",
    packages=find_packages(include=["simreg", "simreg.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "joblib",
    ],
    extras_require={
        "progress": ["tqdm"],
        "test": ["pytest"],
    },
    description="Simulation of multilevel regression datasets",
)
