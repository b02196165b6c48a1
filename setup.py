"""Setup script for the Glance Board application."""

import os
from pathlib import Path

from setuptools import find_packages, setup
from setuptools.command.develop import develop
from setuptools.command.install import install


def post_install_setup():
    """Post-installation setup to create the feed cache directory and show setup guidance."""
    try:
        cache_dir = Path.home() / ".cache" / "glanceboard"
        cache_dir.mkdir(parents=True, exist_ok=True)
        if hasattr(os, "chmod"):
            os.chmod(cache_dir, 0o755)

        if not os.environ.get("GLANCEBOARD_ICAL_URL") and not os.environ.get("GOOGLE_ICAL_URL"):
            print("\n" + "=" * 60)
            print("Glance Board Installation Complete!")
            print("=" * 60)
            print(f"Cache directory: {cache_dir}")
            print("\nNext Steps:")
            print("1. Set GLANCEBOARD_ICAL_URL (or GOOGLE_ICAL_URL) in your environment or .env")
            print("2. Optionally set GLANCEBOARD_LATITUDE / GLANCEBOARD_LONGITUDE for weather")
            print("3. Run 'glanceboard --help' to see all available options")
            print("=" * 60)

    except OSError as e:
        print(f"Warning: Post-install setup failed: {e}")
        print("You may need to create the cache directory manually.")


class PostInstallCommand(install):
    """Custom install command with post-install setup."""

    def run(self):
        install.run(self)
        post_install_setup()


class PostDevelopCommand(develop):
    """Custom develop command with post-install setup."""

    def run(self):
        develop.run(self)
        post_install_setup()


# Read the README file
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements, routing test tooling into the dev extra
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
dev_requirements = []

if requirements_file.exists():
    content = requirements_file.read_text().strip()
    lines = content.split("\n")

    for line in lines:
        line = line.strip()
        # Skip empty lines and comments
        if not line or line.startswith("#"):
            continue

        # Separate development dependencies
        if "pytest" in line or "development" in line.lower() or "testing" in line.lower():
            dev_requirements.append(line)
        else:
            requirements.append(line)

setup(
    name="glanceboard",
    version="1.0.0",
    description="Single-display board of time, weather and upcoming calendar events with stale-while-revalidate caching",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Glance Board Team",
    author_email="support@glanceboard.local",
    url="https://github.com/glanceboard/glanceboard",
    project_urls={
        "Documentation": "https://github.com/glanceboard/glanceboard#readme",
        "Source": "https://github.com/glanceboard/glanceboard",
        "Tracker": "https://github.com/glanceboard/glanceboard/issues",
    },
    # Package configuration
    packages=find_packages(exclude=["tests*", "docs*"]),
    include_package_data=True,
    # Dependencies
    install_requires=requirements,
    extras_require={
        "dev": dev_requirements
        + [
            "black>=23.0.0",
            "isort>=5.12.0",
            "mypy>=1.0.0",
        ],
    },
    python_requires=">=3.11",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Web Environment",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business :: Scheduling",
        "Framework :: AsyncIO",
    ],
    keywords="calendar ics google-calendar weather open-meteo kiosk dashboard async",
    entry_points={
        "console_scripts": [
            "glanceboard=glanceboard.__main__:main",
        ],
    },
    cmdclass={
        "install": PostInstallCommand,
        "develop": PostDevelopCommand,
    },
    zip_safe=False,
    platforms=["linux", "macos"],
)
