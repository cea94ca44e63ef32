"""
Packaging for uaconsole-connector-py. Install with `pip install -e .[test]` and run the tests
with `pytest`.
"""

from setuptools import setup

setup(
    name='uaconsole-connector-py',
    version='0.1.0',
    description='TCP control protocol client and zeroconf discovery for the UA mixer engine monitor controls.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['uaconsole', 'uaconsole.config', 'uaconsole.connector', 'uaconsole.discovery',
              'uaconsole.protocol', 'uaconsole.support'],
    package_data={'uaconsole': ['*.cfg']},
    python_requires='>=3.7',
    install_requires=[
        'configobj>=5.0.6',
        'zeroconf>=0.38',
    ],
    extras_require={
        'test': ['pytest', 'PyHamcrest', 'timeout-decorator'],
    },
    zip_safe=False,
)
