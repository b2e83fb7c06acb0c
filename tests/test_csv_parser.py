import pytest
import sys
import os

# Add project root to sys.path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from anomaly_analyst.csv_parser import parse_csv, load_dataset, split_record
from anomaly_analyst.exceptions import ParseError

def test_parse_simple_csv():
    headers, rows = parse_csv("amount,merchant\n10.5,Acme\n,Acme\n99.9,Beta\n")
    assert headers == ['amount', 'merchant']
    assert rows == [['10.5', 'Acme'], ['', 'Acme'], ['99.9', 'Beta']]

def test_quoted_comma_is_not_a_separator():
    headers, rows = parse_csv('name,city\n"Smith, John","New York"\n')
    assert rows == [['Smith, John', 'New York']]

def test_values_and_headers_are_trimmed():
    headers, rows = parse_csv(' "id" , value \n 1 ,  a b  \n')
    assert headers == ['id', 'value']
    assert rows == [['1', 'a b']]

def test_doubled_quote_inside_quoted_field_is_literal():
    """A doubled quote within quotes is read as one literal quote character."""
    _, rows = parse_csv('quote\n"He said ""hi"""\n')
    assert rows == [['He said "hi"']]

def test_crlf_and_blank_lines():
    headers, rows = parse_csv("a,b\r\n1,2\r\n\r\n3,4\r\n")
    assert headers == ['a', 'b']
    assert rows == [['1', '2'], ['3', '4']]

def test_short_rows_read_as_empty_strings():
    dataset = load_dataset("a,b,c\n1\n1,2,3\n")
    assert dataset.rows[0] == ('1',)
    assert dataset.cell(0, 2) == ''
    assert dataset.record(0) == {'a': '1', 'b': '', 'c': ''}
    assert dataset.column(1) == ['', '2']

def test_unterminated_quote_names_line_number():
    with pytest.raises(ParseError) as exc:
        parse_csv('a,b\n1,2\n"open,3\n4,5\n')
    assert exc.value.line_number == 3
    assert "Line 3" in str(exc.value)

def test_empty_input_raises():
    with pytest.raises(ParseError):
        parse_csv("")
    with pytest.raises(ParseError):
        parse_csv("\n  \n")

def test_header_only_yields_no_rows():
    headers, rows = parse_csv("a,b\n")
    assert headers == ['a', 'b']
    assert rows == []

def test_duplicate_headers_are_made_unique():
    headers, _ = parse_csv("x,x,y,x\n1,2,3,4\n")
    assert headers == ['x', 'x.1', 'y', 'x.2']
    assert len(set(headers)) == len(headers)

def test_split_record_keeps_trailing_empty_field():
    assert split_record("1,2,", 1) == ['1', '2', '']

def test_only_newline_ends_a_record():
    _, rows = parse_csv("id,note\n1,first\u2028line\n2,plain\n")
    assert rows == [['1', 'first\u2028line'], ['2', 'plain']]

def test_form_feed_inside_quoted_field():
    _, rows = parse_csv('id,note\n1,"a\x0cb"\n')
    assert rows == [['1', 'a\x0cb']]

if __name__ == "__main__":
    sys.exit(pytest.main([__file__]))
