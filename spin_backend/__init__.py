# Let Django's MySQL backend run on PyMySQL instead of mysqlclient.
import pymysql

pymysql.install_as_MySQLdb()
