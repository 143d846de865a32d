from setuptools import setup

setup(name="glider_calibration",
      version="0.3",
      description='Module for calibrating sensor lag and thermal lag of glider CTD data',
      author='Lucas Merckelbach',
      author_email='lucas.merckelbach@hereon.de',
      packages=["glider_calibration"],
      package_dir={"": "src"},
      python_requires=">=3.8",
      install_requires=["numpy", "scipy", "gsw", "shapely>=2.0"],
      extras_require={"test": ["pytest"]},
      license='GPL',
      platforms='UNIX',
      )
