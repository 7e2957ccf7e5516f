from setuptools import setup


setup(
    name="timesheet-doctor",
    version="0.3.0",
    description="Attendance spreadsheet ingestion, normalisation and anomaly review for Korean timesheets",
    packages=["timesheet_doctor"],
    python_requires=">=3.10",
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
        "SQLAlchemy>=2.0",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "test": ["pytest"],
        "all": ["xlrd"],
    },
    entry_points={
        "console_scripts": [
            "timesheet-doctor=timesheet_doctor.cli:main",
        ]
    },
)
