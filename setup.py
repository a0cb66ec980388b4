import os
import codecs
import re
from setuptools import setup, find_packages

HERE = os.path.abspath(os.path.dirname(__file__))


def read(*parts):
    with codecs.open(os.path.join(HERE, *parts), 'rb', 'utf-8') as f:
        return f.read()


def find_version(*parts):
    match = re.search(
        r"^version = ['\"]([^'\"]*)['\"]", read(*parts), re.M)
    if match is None:
        raise RuntimeError('Unable to find version string.')
    return match.group(1)


setup(
    version=find_version('src', 'txbac', '_version.py'),
    name='txbac',
    description='ACME (RFC 8555) client operations for Twisted',
    license='Expat',
    long_description=read('README.rst'),
    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    zip_safe=True,
    python_requires='>=3.7',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Framework :: Twisted',
        'Intended Audience :: Developers',
        'Natural Language :: English',
        'License :: OSI Approved :: MIT License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: Implementation :: CPython',
        'Programming Language :: Python :: Implementation :: PyPy',
        'Topic :: Internet :: WWW/HTTP',
        'Topic :: Security :: Cryptography',
        'Topic :: Software Development :: Libraries :: Python Modules',
        ],
    install_requires=[
        'acme>=2.0.0',
        'attrs>=19.2.0',
        'constantly>=15.1.0',
        'cryptography>=3.1',
        'eliot>=1.7.0',
        'josepy>=1.13.0',
        'pem>=16.1.0',
        'treq>=22.1.0',
        'twisted[tls]>=21.7.0',
        'zope.interface',
        ],
    extras_require={
        'test': [
            'hypothesis>=6.0.0',
            'testtools>=2.1.0',
            ],
        },
    )
