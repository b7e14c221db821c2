from setuptools import setup

setup(
    name='gateway_session',
    version='0.1.0',
    description='Blocking Discord gateway session built on a sans-I/O WebSocket.',
    packages=['gateway_session'],
    python_requires='>=3.8',
    install_requires=['wsproto'],
    extras_require={
        'perf': ['ujson'],
        'cli': ['python-dotenv'],
        'test': ['pytest'],
    },
)
