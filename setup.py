from setuptools import setup, find_packages

setup(
    name="featbench",
    version="1.0.0",
    description="Feature detector, descriptor and matcher combination benchmark",
    author="featbench",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "opencv-contrib-python>=4.8.0",
        "numpy>=1.24.0",
        "scipy>=1.10.0",
        "scikit-image>=0.21.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": ["featbench=featbench.cli:main"],
    },
    python_requires=">=3.9",
)
