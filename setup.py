
from setuptools import find_packages, setup

setup(
    name='starlink-dish-exporter',
    version='0.3.0',
    description='Prometheus exporter for Starlink dish status over gRPC',
    author='isantolin',
    author_email='',
    packages=find_packages(include=['dishexporter', 'dishexporter.*']),
    python_requires='>=3.12',
    install_requires=[
        'grpcio',
        'protobuf',
        'prometheus-client<0.22',
        'msgspec',
        'marshmallow',
        'python-dotenv',
        'tenacity',
        'uvloop',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    entry_points={
        'console_scripts': [
            'dishexporter=dishexporter.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
