import pytest

from data.record_source import CSVRecordSource
from utils.exceptions import EmptyInputError, RecordSourceError


def write_csv(tmp_path, text, name='sales.csv'):
    path = tmp_path / name
    path.write_text(text, encoding='utf-8')
    return str(path)


def test_reads_rows_as_strings(tmp_path):
    path = write_csv(tmp_path, 'date,product,category,amount\n2024-01-01,A,Electronics,50000\n2024-01-02,B,Food,3000\n')
    records = CSVRecordSource(path).read()

    assert len(records) == 2
    assert records[0]['amount'] == '50000'
    assert records[1]['category'] == 'Food'


def test_blank_lines_skipped(tmp_path):
    path = write_csv(tmp_path, 'date,product,category,amount\n\n2024-01-01,A,X,1\n,,,\n\n2024-01-02,B,Y,2\n')
    records = CSVRecordSource(path).read()
    assert [r['product'] for r in records] == ['A', 'B']


def test_japanese_values_preserved(tmp_path):
    path = write_csv(tmp_path, 'date,product,category,amount\n2024-01-01,ノートPC,家電,120000\n')
    records = CSVRecordSource(path).read()
    assert records[0]['category'] == '家電'


def test_missing_file(tmp_path):
    with pytest.raises(RecordSourceError):
        CSVRecordSource(str(tmp_path / 'nope.csv')).read()


def test_empty_path_rejected():
    with pytest.raises(RecordSourceError):
        CSVRecordSource('')


def test_header_only_is_empty_input(tmp_path):
    path = write_csv(tmp_path, 'date,product,category,amount\n')
    with pytest.raises(EmptyInputError):
        CSVRecordSource(path).read()


def test_empty_file_has_no_header(tmp_path):
    path = write_csv(tmp_path, '')
    with pytest.raises(RecordSourceError):
        CSVRecordSource(path).read()


def test_row_with_extra_columns_rejected(tmp_path):
    path = write_csv(tmp_path, 'date,product,category,amount\n2024-01-01,A,X,1,extra\n')
    with pytest.raises(RecordSourceError):
        CSVRecordSource(path).read()


def test_row_with_missing_columns_rejected(tmp_path):
    path = write_csv(tmp_path, 'date,product,category,amount\n2024-01-01,A\n')
    with pytest.raises(RecordSourceError):
        CSVRecordSource(path).read()


def test_later_row_with_extra_columns_rejected(tmp_path):
    path = write_csv(tmp_path, 'date,product,category,amount\n2024-01-01,A,X,1\n2024-01-02,B,Y,2,extra\n')
    with pytest.raises(RecordSourceError):
        CSVRecordSource(path).read()
