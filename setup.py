from setuptools import find_packages, setup

setup(
    name='depfetch',
    version='0.1.0',
    description='Browse registry package metadata, resolve dependencies and bulk-download tarballs',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.9',
    install_requires=[
        'aiohttp',
        'aiofiles',
        'pick',
        'platformdirs',
        'PyYAML',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'depfetch=depfetch.cli:main',
        ],
    },
    # Include other metadata as needed
)
