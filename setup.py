import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="ontasm",
    version="0.1.0",
    author="polivares",
    author_email="pedroy.final@gmail.com",
    description="resumable nanopore bacterial genome assembly pipeline",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    package_data={"ontasm": ["conf/*.yaml"]},
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
    ],
    install_requires = ['rich',
                        'polars',
                        'pysam',
                        'pyfaidx',
                        'pyaml'],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["ontasm=ontasm.cli:main"]},
    python_requires='>=3.10',
)
# python3 setup.py sdist bdist_wheel
