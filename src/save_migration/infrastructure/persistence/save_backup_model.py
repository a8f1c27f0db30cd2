"""存档备份归档表（peewee 模型）。

数据库在运行时由 BackupArchive 绑定，模型本身不持有连接。
"""

from datetime import datetime

from peewee import BlobField, CharField, DateTimeField, Model


class SaveBackupModel(Model):
    """save_backup 表：每次提交的迁移前原始存档一行。"""

    record_id = CharField(max_length=64, unique=True)
    artifact_name = CharField(max_length=512, index=True)
    source_version = CharField(max_length=32, null=True)
    digest = CharField(max_length=64)
    payload = BlobField()
    saved_at = DateTimeField(default=datetime.now, index=True)

    class Meta:
        table_name = "save_backup"
