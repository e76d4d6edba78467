from setuptools import setup, find_packages

with open('requirements.txt') as f:
    requirements = [r.strip() for r in f if r.strip() and not r.startswith('#')]

setup(
    name='needlesdk',
    version='0.1.0',
    description='Template-based needle length measurement SDK on OpenCV',
    packages=find_packages(include=['needlesdk', 'needlesdk.*']),
    install_requires=requirements,
    extras_require={'test': ['pytest>=7']},
    python_requires='>=3.8',
)
