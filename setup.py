from setuptools import setup, find_packages

setup(
    name='simdex',
    version='0.1',
    description='A cache of collection metadata and simulation parameters stored in HDF5 files',
    author='florez',
    author_email='florez@ethz.ch',
    license='MIT',
    packages=find_packages(include=['simdex', 'simdex.*']),
    package_data={'simdex': ['__init__.pyi']},
    python_requires='>=3.9',
    install_requires=[
        'h5py',
        'numpy',
        'sqlalchemy>=2.0',
        'pyyaml',
        'typing_extensions',
        'lazy_loader',
        'tomli; python_version < "3.11"',
        ],
    extras_require={
        'test': ['pytest'],
        },
)
