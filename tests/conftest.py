import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

INCOME = "Gross income - TOTAL"
PENSIONS = "Pensions"


def write_csv(path: Path, lines) -> Path:
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def municipality_csv(tmp_path):
    return write_csv(
        tmp_path / "obcine.csv",
        [
            f'obcina,leto,"{INCOME}",{PENSIONS},opomba',
            'Ljubljana,2020,1500,300,glavno mesto',
            'Maribor,2020,1200,z,',
            '"Črnomelj",2020,900,250,',
            'Ljubljana,2021,1600,310,',
            'Maribor,2021,1300,280,',
            '"Črnomelj",2021,,260,',
            'Ljubljana,2022,z,,',
        ],
    )


@pytest.fixture
def region_csv(tmp_path):
    return write_csv(
        tmp_path / "regije.csv",
        [
            f'regija,leto,"{INCOME}"',
            'Osrednjeslovenska,2020,1400',
            'Podravska,2020,1100',
            'Osrednjeslovenska,2021,1450',
        ],
    )
