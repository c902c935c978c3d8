"""Setup configuration for constellation-diary package."""

from setuptools import find_packages, setup

setup(
    name="constellation-diary",
    version="0.1.0",
    author="Maximilian Sperlich",
    description="Photo diary stars grouped into constellations and matched to reference shapes",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    url="https://github.com/krshI27/constellation-diary",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "numpy>=2.0",
        "scipy>=1.16",
        "pandas>=2.0",
        "opencv-python-headless>=4.0",
        "pillow>=12.0",
    ],
    extras_require={
        "dev": [
            "pytest>=9.0",
            "pytest-cov>=7.0",
            "black>=25.0",
            "flake8>=7.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Scientific/Engineering :: Image Recognition",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
    ],
)
