from setuptools import setup

with open("README.md") as f:
    readme = f.read()

_ = setup(
    name="certaudit",
    version="1.0.0",
    license="MIT",
    long_description=readme,
    long_description_content_type="text/markdown",
    install_requires=[
        "impacket~=0.12.0",
        "ldap3~=2.9.1",
        "pyasn1~=0.6.1",
        "dnspython~=2.7.0",
        "argcomplete~=3.6.2",
    ],
    extras_require={
        "test": ["pytest~=8.3.5"],
    },
    packages=[
        "certaudit",
        "certaudit.commands",
        "certaudit.commands.parsers",
        "certaudit.lib",
    ],
    entry_points={
        "console_scripts": ["certaudit=certaudit.entry:main"],
    },
    python_requires=">=3.8",
    description="Find AD CS certificate templates allowing user impersonation",
)
