from setuptools import setup, find_packages
from pathlib import Path

package_name = 'eventmesh-operator'
description = (
    'A Kubernetes Operator that installs Knative Eventing and the Knative '
    'Kafka broker from a single EventMesh resource.'
)
author = 'Knative Authors'
author_email = 'knative-dev@googlegroups.com'
license = 'Apache-2.0'
url = 'https://github.com/knative-extensions/eventmesh-operator'
pypi_classifiers = [
    'Development Status :: 3 - Alpha',
    'License :: OSI Approved :: Apache Software License',
    'Programming Language :: Python :: 3.10',
    'Programming Language :: Python :: 3.11',
    'Programming Language :: Python :: 3.12',
]
keywords = ['knative', 'kubernetes', 'operator']
readme = Path(__file__).parent / 'README.rst'

# Core dependencies
install_requires = [
    'kopf>=1.37',
    'kubernetes>=29.0.0',
    'structlog>=24.1.0',
    'PyYAML>=6.0',
    'packaging>=23.0',
]

# Test dependencies
tests_require = [
    'pytest>=8.0',
]
tests_require += install_requires

# Optional dependencies (like for dev)
extras_require = {
    'test': tests_require,
    # For development environments
    'dev': tests_require,
}

setup(
    name=package_name,
    version='0.1.0',
    description=description,
    long_description=readme.read_text(),
    long_description_content_type='text/x-rst',
    author=author,
    author_email=author_email,
    url=url,
    license=license,
    classifiers=pypi_classifiers,
    keywords=keywords,
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.10',
    install_requires=install_requires,
    extras_require=extras_require,
    include_package_data=True
)
