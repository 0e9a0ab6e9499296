import dataclasses

import pytest
from sqlbridge.adapters.column_info import ColumnInfo, ForeignKeyInfo, IndexInfo


def test_full_name_defaults_to_table_and_name():
    """Test full_name is derived from the table when one is known"""
    column = ColumnInfo(name='id', native_type='integer', table='users')
    assert column.full_name == 'users.id'

    assert ColumnInfo(name='id').full_name is None
    assert ColumnInfo(name='id', table='users', full_name='u.id').full_name == 'u.id'


def test_defaults():
    """Test the minimal field set defaults"""
    column = ColumnInfo(name='value')
    assert column.native_type is None
    assert column.size is None
    assert column.nullable is True
    assert column.default is None
    assert column.autoincrement is False
    assert dict(column.vendor) == {}


def test_name_required():
    """Test a column cannot be created without a name"""
    with pytest.raises(ValueError):
        ColumnInfo(name='')


def test_frozen():
    """Test columns are immutable after construction"""
    column = ColumnInfo(name='id', vendor={'pk': 1})

    with pytest.raises(dataclasses.FrozenInstanceError):
        column.name = 'other'
    with pytest.raises(TypeError):
        column.vendor['pk'] = 0


def test_vendor_is_copied():
    """Test later changes to the source mapping do not leak into the column"""
    vendor = {'storage_class': 'text'}
    column = ColumnInfo(name='c', vendor=vendor)
    vendor['storage_class'] = 'blob'
    assert column.vendor['storage_class'] == 'text'


def test_hashable():
    """Test columns can be used as dict keys and set members"""
    column = ColumnInfo(name='id', native_type='int4', vendor={'type_code': 23})
    same = ColumnInfo(name='id', native_type='int4', vendor={'type_code': 23})
    assert hash(column) == hash(same)
    assert {column: 1}[same] == 1
    assert len({column, same, ColumnInfo(name='other')}) == 2


def test_to_dict():
    """Test serialization of every field"""
    column = ColumnInfo(name='id', native_type='int4', table='t', size=4,
                        nullable=False, autoincrement=True, vendor={'scale': None})
    assert column.to_dict() == {
        'name': 'id',
        'native_type': 'int4',
        'table': 't',
        'full_name': 't.id',
        'size': 4,
        'nullable': False,
        'default': None,
        'autoincrement': True,
        'vendor': {'scale': None},
        }


def test_list_helpers():
    """Test the column list helpers"""
    columns = [ColumnInfo(name='a'), ColumnInfo(name='b', native_type='text')]
    assert ColumnInfo.get_names(columns) == ['a', 'b']
    assert set(ColumnInfo.get_column_types_dict(columns)) == {'a', 'b'}


def test_schema_records():
    """Test index and foreign key records keep column order"""
    index = IndexInfo(name='idx', columns=('b', 'a'), unique=True)
    assert index.columns == ('b', 'a')
    assert index.primary is False

    fk = ForeignKeyInfo(name=None, local=('a_id',), table='a', foreign=('id',))
    assert fk.on_delete is None
    assert list(zip(fk.local, fk.foreign)) == [('a_id', 'id')]


if __name__ == '__main__':
    __import__('pytest').main([__file__])
