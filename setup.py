# type: ignore
from setuptools import find_packages, setup, Command

import sys

# Get VERSION constant from flagclient.version - we can't simply import that module because
# flagclient/__init__.py imports modules that require dependencies we may not have loaded yet.
version_module_globals = {}
with open('./flagclient/version.py') as f:
    exec(f.read(), version_module_globals)
flagclient_version = version_module_globals['VERSION']


def parse_requirements(filename):
    """ load requirements from a pip requirements file """
    lineiter = (line.strip() for line in open(filename))
    return [line for line in lineiter if line and not line.startswith("#")]


reqs = parse_requirements('requirements.txt')
testreqs = parse_requirements('test-requirements.txt')


class PyTest(Command):
    user_options = []

    def initialize_options(self):
        pass

    def finalize_options(self):
        pass

    def run(self):
        import subprocess
        errno = subprocess.call([sys.executable, '-m', 'pytest', 'flagclient'])
        raise SystemExit(errno)


setup(
    name='flagclient-server-sdk',
    version=flagclient_version,
    packages=find_packages(exclude=['flagclient.testing', 'flagclient.testing.*']),
    description='Server-side feature flag client for Python',
    long_description='Server-side feature flag client for Python',
    install_requires=reqs,
    python_requires='>=3.8',
    classifiers=[
        'Intended Audience :: Developers',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Software Development',
        'Topic :: Software Development :: Libraries',
    ],
    extras_require={
        "test": testreqs,
    },
    tests_require=testreqs,
    cmdclass={'test': PyTest},
)
